from .shared_file import FileState, SharedFile
from .otp_challenge import OtpChallenge
from .invitation import Invitation, InvitationStatus
from .file_access_log import AccessEvent, FileAccessLog
from .consumed_file import ConsumedFile
from .sms_rate_limit import SmsRateLimit

__all__ = [
    "FileState",
    "SharedFile",
    "OtpChallenge",
    "Invitation",
    "InvitationStatus",
    "AccessEvent",
    "FileAccessLog",
    "ConsumedFile",
    "SmsRateLimit",
]
