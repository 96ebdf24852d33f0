# payments_sync package
__version__ = "0.1.0"

from .config import SyncSettings
from .errors import (
    SyncError,
    StateDecodeError,
    RecordMappingError,
    FetchCancelledError,
    MissingFromPayloadError,
    UnsupportedSourceError,
)
from .models import CanonicalRecord, Page, FetchNextRequest, FetchNextResponse
from .state import CursorState, Timeline, StateCodec, cursor_codec, timeline_codec
from .dedup import DedupFilter
from .budget import TimeBudgetGuard
from .pagination import PaginationDriver, should_fetch_more
from .timeline import TimelineScanner
from .contract import SyncContract
from .connectors import (
    SourceKind,
    NativePage,
    CursorPosition,
    RecordMapper,
    ForwardCursorAdapter,
    TimelineAdapter,
)
