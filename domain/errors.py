# domain/errors.py

class TaskDefinitionError(ValueError):
    """Raised when a task definition (or a task built from one) would be invalid"""
    pass

class FinalisedError(Exception):
    """Raised when executing a task whose whole hierarchy is already finalised"""
    pass

class TaskTimeoutError(Exception):
    """Indicates that a task or operation ran out of time"""
    pass
