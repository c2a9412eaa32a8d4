# __init__.py
from jobcrm.schemas.chat import ChatMessage, ChatRequest, ChatResponse
from jobcrm.schemas.classification import ClassificationRequest, ClassificationResult
from jobcrm.schemas.document import IngestRequest, IngestResponse, KnowledgeMatch, KnowledgeSearchRequest
from jobcrm.schemas.enrichment import EnrichmentRequest, EnrichmentResponse, ReEnrichRequest
from jobcrm.schemas.interview import InterviewRoundCreate, InterviewRoundRead, InterviewRoundUpdate
from jobcrm.schemas.job import JobListResponse, JobNoteCreate, JobNoteRead, JobStatusUpdate, JobUpdate
from jobcrm.schemas.profile import UserProfile, UserProfileResponse, UserProfileUpdate
from jobcrm.schemas.user import Token, TokenData, UserCreate, UserLogin, UserRead, UserUpdate

__all__ = [
	"ChatMessage",
	"ChatRequest",
	"ChatResponse",
	"ClassificationRequest",
	"ClassificationResult",
	"IngestRequest",
	"IngestResponse",
	"KnowledgeMatch",
	"KnowledgeSearchRequest",
	"EnrichmentRequest",
	"EnrichmentResponse",
	"ReEnrichRequest",
	"InterviewRoundCreate",
	"InterviewRoundRead",
	"InterviewRoundUpdate",
	"JobListResponse",
	"JobNoteCreate",
	"JobNoteRead",
	"JobStatusUpdate",
	"JobUpdate",
	"UserProfile",
	"UserProfileUpdate",
	"UserProfileResponse",
	"Token",
	"TokenData",
	"UserCreate",
	"UserLogin",
	"UserRead",
	"UserUpdate",
]
