"""
Shared Security Infrastructure
Credential vault and audit logging
"""
from shared.infrastructure.security.audit_log import (
    AuditLogger,
    AuditRecord,
    AuditSink,
    InMemoryAuditSink,
    LoggingAuditSink,
    redact_pii,
)
from shared.infrastructure.security.encryption import (
    CredentialDecryptionError,
    CredentialVault,
    hash_for_log,
)

__all__ = [
    "CredentialVault",
    "CredentialDecryptionError",
    "hash_for_log",
    "AuditLogger",
    "AuditRecord",
    "AuditSink",
    "InMemoryAuditSink",
    "LoggingAuditSink",
    "redact_pii",
]
