"""Application services: quota policy, key scheme, admission, access, ledger."""

from cloudvault.application.services.access_issuer import SignedAccessIssuer
from cloudvault.application.services.object_keys import ObjectKeyGenerator
from cloudvault.application.services.quota_policy import QuotaPolicy
from cloudvault.application.services.upload_admission import (
    UploadAdmissionController,
    UploadAttempt,
)
from cloudvault.application.services.usage_ledger import UsageLedger

__all__ = [
    "ObjectKeyGenerator",
    "QuotaPolicy",
    "SignedAccessIssuer",
    "UploadAdmissionController",
    "UploadAttempt",
    "UsageLedger",
]
