"""
CGPA tracker core: grading scale, GPA engine, form validation and an
offline-capable sync layer for semesters, courses and the student profile.
"""

from .analytics import AnalyticsData, build_analytics, target_projection
from .backend_client import BackendDataService, SupabaseRestClient
from .connectivity import ConnectivityProbe
from .data_models import Course, PendingSyncItem, Preferences, Profile, Semester, SemesterSnapshot
from .errors import CacheError, CGPATrackerError, ReachabilityTimeout, RemoteError, ValidationError
from .gpa_calculator import (
    GPATrend,
    cgpa_of,
    class_standing,
    gpa_of,
    required_future_gpa,
    trend_of,
)
from .grade_scale import GRADE_SCALE, GradeBand, grade_for
from .offline_cache import JsonFileStore, MemoryStore, OfflineCache
from .retry import RetryPolicy
from .score_aggregator import CourseScore, score_course
from .settings import Settings, get_settings
from .sync_coordinator import ProfileSyncCoordinator, SemesterSyncCoordinator, SyncState
from .validation import (
    CourseFormData,
    ProfileFormData,
    SemesterFormData,
    ValidationResult,
    validate,
    validate_course,
    validate_profile,
    validate_semester,
)

__version__ = "1.0.0"
