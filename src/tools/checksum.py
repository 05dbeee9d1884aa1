import hashlib
import json

from drafting.contract import Contract


def calculate_checksum(content: bytes) -> str:
    """
    Compute a SHA-256 checksum for raw bytes.

    Example:
        >>> calculate_checksum(b"hello")[:12]
        '2cf24dba5fb0'
    """
    return hashlib.sha256(content).hexdigest()


def contract_checksum(contract: Contract) -> str:
    """
    Fingerprint of the contract text: parties, amounts, clauses and
    schedule. Run metadata (timings, model) is excluded so that identical
    documents hash identically.
    """
    dumped = contract.model_dump(mode="json", by_alias=True, exclude={"metadata"})
    canonical = json.dumps(dumped, ensure_ascii=False, sort_keys=True)
    return calculate_checksum(canonical.encode("utf-8"))
