from sqlalchemy.orm import declarative_base
import enum

Base = declarative_base()


# ============================================================================
# ENUMS
# ============================================================================

class BatchState(str, enum.Enum):
    """Lifecycle of one export batch identity"""
    PENDING_FIRST_ATTEMPT = "pending_first_attempt"
    ATTEMPTING = "attempting"
    RETRY_SCHEDULED = "retry_scheduled"
    SUCCESS = "success"
    DROPPED = "dropped"
    FAILED = "failed"


class FieldType(str, enum.Enum):
    """BigQuery column types used by the export table"""
    STRING = "STRING"
    INT64 = "INT64"
    TIMESTAMP = "TIMESTAMP"
