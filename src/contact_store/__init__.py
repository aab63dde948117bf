"""contact storage: a uniform async crud contract over memory, json-file and dynamodb backends"""

__version__ = "0.1.0"
