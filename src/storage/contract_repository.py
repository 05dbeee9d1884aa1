import copy
import itertools
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from drafting.contract import ClauseRow, Contract, ContractRecord


class ContractRepository(ABC):
    """
    Persistence collaborator for generated contracts.
    """

    @abstractmethod
    def save(self, record: ContractRecord) -> int:
        """
        Store the contract record and return its id.
        """

    @abstractmethod
    def insert_clauses(self, rows: List[ClauseRow]) -> None:
        """
        Batch insert of the normalised clause rows of one contract.
        """


class InMemoryContractRepository(ContractRepository):
    """
    Example:
        >>> repo = InMemoryContractRepository()
        >>> contract_id = repo.save(record)
        >>> repo.get(contract_id).status
        'draft'
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self.records: Dict[int, ContractRecord] = {}
        self.clause_rows: Dict[int, List[ClauseRow]] = {}

    def save(self, record: ContractRecord) -> int:
        with self._lock:
            contract_id = next(self._ids)
            self.records[contract_id] = copy.deepcopy(record)
            return contract_id

    def insert_clauses(self, rows: List[ClauseRow]) -> None:
        if not rows:
            return
        contract_ids = {row.contract_id for row in rows}
        with self._lock:
            missing = contract_ids - self.records.keys()
            if missing:
                raise KeyError(f"Unknown contract ids: {sorted(missing)}")
            for contract_id in contract_ids:
                self.clause_rows[contract_id] = sorted(
                    (r for r in rows if r.contract_id == contract_id),
                    key=lambda r: r.order,
                )

    def get(self, contract_id: int) -> Optional[ContractRecord]:
        return self.records.get(contract_id)

    def __len__(self) -> int:
        return len(self.records)


# -------------------------------------------------
# Record builders
# -------------------------------------------------

def build_contract_record(contract: Contract, status: str = "draft") -> ContractRecord:
    dumped = contract.model_dump(mode="json", by_alias=True)
    return ContractRecord(
        content=dumped,
        metadata=dumped["metadata"],
        clauses=dumped["clauses"],
        status=status,
    )


def build_clause_rows(contract_id: int, contract: Contract) -> List[ClauseRow]:
    return [
        ClauseRow(
            contract_id=contract_id,
            type=clause.category,
            title=clause.title,
            content=clause.content,
            order=clause.order,
            risk_level=clause.risk_level,
            essential=clause.essential,
        )
        for clause in contract.clauses
    ]
