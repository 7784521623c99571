"""
Services Package
"""
from quizpart.services.scoring_service import ScoringService, ScoreSummary
from quizpart.services.attempt_service import Attempt, AttemptRegistry, AttemptStatus
from quizpart.services.record_store import RecordStore, SqlRecordStore, RestRecordStore, get_record_store
from quizpart.services.results_service import ResultsService
from quizpart.services.progress_service import ProgressService
from quizpart.services.trigger_service import HttpTriggerService, TriggerConfig
from quizpart.services.submission_service import finalize_submission

__all__ = [
    'ScoringService', 'ScoreSummary',
    'Attempt', 'AttemptRegistry', 'AttemptStatus',
    'RecordStore', 'SqlRecordStore', 'RestRecordStore', 'get_record_store',
    'ResultsService', 'ProgressService',
    'HttpTriggerService', 'TriggerConfig',
    'finalize_submission',
]
