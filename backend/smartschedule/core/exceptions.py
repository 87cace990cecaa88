class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class InvalidEntity(AppError):
    """Raised when reference data is malformed. Fix the data and resubmit."""
    def __init__(self, entity: str, entity_id: str | None, field: str, message: str):
        super().__init__(
            f"Invalid {entity} {entity_id or '<new>'}: {field} {message}",
            status_code=422,
            details={"entity": entity, "entity_id": entity_id, "field": field},
        )
        self.entity = entity
        self.entity_id = entity_id
        self.field = field


class InvalidRequest(AppError):
    """Raised when generation parameters are rejected before the engine runs."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=400, details=details)


class DataUnavailable(AppError):
    """Raised when a referenced entity cannot be resolved in the store."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=404, details=details)


class Infeasible(AppError):
    """Raised when the search exhausts every candidate for one or more sections."""
    def __init__(self, section_ids: list[str], details: dict = None):
        merged = {"section_ids": list(section_ids)}
        merged.update(details or {})
        super().__init__(
            f"No admissible assignment for {len(section_ids)} section(s)",
            status_code=409,
            details=merged,
        )
        self.section_ids = list(section_ids)


class PersistenceFailure(AppError):
    """Raised when a schedule could not be written. Nothing was persisted."""
    def __init__(self, message: str, *, transient: bool = False, details: dict = None):
        super().__init__(message, status_code=503, details=details)
        self.transient = transient


class GenerationCancelled(AppError):
    """Raised when a run is cancelled (or times out) before its schedule is persisted."""
    def __init__(self, reason: str, details: dict = None):
        merged = {"reason": reason}
        merged.update(details or {})
        super().__init__(f"Schedule generation cancelled ({reason})", status_code=409, details=merged)
        self.reason = reason


class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)
