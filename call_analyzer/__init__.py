# call_analyzer/__init__.py
