"""Service layer."""

from .supabase import get_supabase_client
from .events import EventBus
from .storage import VoiceprintRepository
from .semantic import SemanticSignatureExtractor
from .synthesis import ThresholdPolicy, synthesize_traits
from .lifecycle import FingerprintLifecycleManager
