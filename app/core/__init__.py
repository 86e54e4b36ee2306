"""
Core - shared infrastructure for the marketplace apps.

Models (core.models):
    - BaseModel: Abstract model with created_at/updated_at

Model Mixins (core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID primary key
    - VersionedMixin: Optimistic-lock version counter

Services (core.services):
    - BaseService: Logger and transaction helpers
    - ServiceResult: Success/failure wrapper for batch and webhook work

Exceptions (core.exceptions):
    - BaseApplicationError and its ValidationError, NotFoundError,
      PermissionDeniedError, ConflictError, ExternalServiceError subclasses

API (core.exception_handler):
    - application_exception_handler: Renders BaseApplicationError for DRF
"""
