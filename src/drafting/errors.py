from typing import Any, Dict, List, Optional


class ContractEngineError(Exception):
    """
    Base class for every error the contract engine surfaces to callers.

    Each subclass carries a stable ``code`` so the pipeline entry point can
    return a typed error together with a human-readable message.
    """

    code = "contract_engine_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(ContractEngineError):
    """
    Missing external-service credentials or invalid engine configuration.
    Fatal and never retried.
    """

    code = "configuration_error"


class NoCandidatesError(ContractEngineError):
    """
    Empty template catalog or empty clause candidate pool.
    """

    code = "no_candidates"


class InputValidationError(ContractEngineError):
    code = "input_validation_error"

    def __init__(self, errors: List[str]):
        super().__init__(
            "Contract input validation failed: " + "; ".join(errors),
            details={"errors": list(errors)},
        )
        self.errors = list(errors)


class AssemblyError(ContractEngineError):
    """
    A required upstream field (clauses, amount) was missing at assembly time.
    """

    code = "assembly_error"


class TextGenerationError(ContractEngineError):
    """
    External text-generation call failed (timeout, HTTP error, empty body).

    Always recovered by the calling stage's deterministic fallback.
    """

    code = "text_generation_error"


class PipelineCancelledError(ContractEngineError):
    code = "pipeline_cancelled"


class ConflictError(ContractEngineError):
    """
    Rule-based selection produced clauses that cannot coexist.

    ``conflicts`` holds one entry per conflicting pair with the shared
    markers and the alternatives each clause suggests.
    """

    code = "clause_conflict"

    def __init__(self, conflicts: List[Dict[str, Any]]):
        pairs = ", ".join(
            f"{c['clause_a']} <-> {c['clause_b']}" for c in conflicts
        )
        super().__init__(
            f"Incompatible clauses selected: {pairs}",
            details={"conflicts": conflicts},
        )
        self.conflicts = conflicts


class ParseError(ContractEngineError):
    """
    Malformed external response.

    Returned as a value inside ``ParseResult`` rather than raised; it keeps
    the original raw text for logging.
    """

    code = "parse_error"

    def __init__(self, message: str, raw_text: Optional[str]):
        super().__init__(message, details={"raw_length": len(raw_text or "")})
        self.raw_text = raw_text
