# __init__.py
from jobcrm.models.audit import EnrichmentAuditEvent, EnrichmentAuditTrail
from jobcrm.models.chat_usage import ChatUsage
from jobcrm.models.enrichment import JobEnrichment
from jobcrm.models.interview_round import InterviewRound
from jobcrm.models.job import Job
from jobcrm.models.job_document import JobDocument
from jobcrm.models.job_note import JobNote
from jobcrm.models.knowledge_chunk import KnowledgeChunk
from jobcrm.models.pipeline_trace import PipelineTrace
from jobcrm.models.profile import UserProfileModel
from jobcrm.models.user import User

__all__ = [
	"ChatUsage",
	"EnrichmentAuditEvent",
	"EnrichmentAuditTrail",
	"InterviewRound",
	"Job",
	"JobDocument",
	"JobEnrichment",
	"JobNote",
	"KnowledgeChunk",
	"PipelineTrace",
	"User",
	"UserProfileModel",
]
