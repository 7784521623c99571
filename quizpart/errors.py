"""
Error Types
Raised inside services, converted to JSON messages by the routes
"""


class QuizPartError(Exception):
    """Base error for the quiz widget"""


class RecordStoreError(QuizPartError):
    """List storage call failed (network, status code, missing item)"""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class QuestionFormatError(QuizPartError):
    """Question object does not have the expected structure"""


class AttemptStateError(QuizPartError):
    """Operation not allowed in the attempt's current state"""
