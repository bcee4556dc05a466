from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


class Domain(int, Enum):
    DISCONNECTION_REJECTION = 1
    IMPAIRED_AUTONOMY_PERFORMANCE = 2
    IMPAIRED_LIMITS = 3
    OTHER_DIRECTEDNESS = 4
    OVERVIGILANCE_INHIBITION = 5

    @property
    def label(self) -> str:
        return DOMAIN_LABELS[self]


DOMAIN_LABELS: Dict[Domain, str] = {
    Domain.DISCONNECTION_REJECTION: "Disconnection & Rejection",
    Domain.IMPAIRED_AUTONOMY_PERFORMANCE: "Impaired Autonomy & Performance",
    Domain.IMPAIRED_LIMITS: "Impaired Limits",
    Domain.OTHER_DIRECTEDNESS: "Other-Directedness",
    Domain.OVERVIGILANCE_INHIBITION: "Overvigilance & Inhibition",
}


class SchemaId(str, Enum):
    ABANDONMENT_INSTABILITY = "abandonment_instability"
    DEFECTIVENESS_SHAME = "defectiveness_shame"
    EMOTIONAL_DEPRIVATION = "emotional_deprivation"
    MISTRUST_ABUSE = "mistrust_abuse"
    SOCIAL_ISOLATION_ALIENATION = "social_isolation_alienation"
    DEPENDENCE_INCOMPETENCE = "dependence_incompetence"
    VULNERABILITY_TO_HARM_ILLNESS = "vulnerability_to_harm_illness"
    ENMESHMENT_UNDEVELOPED_SELF = "enmeshment_undeveloped_self"
    FAILURE = "failure"
    ENTITLEMENT_GRANDIOSITY = "entitlement_grandiosity"
    INSUFFICIENT_SELF_CONTROL_DISCIPLINE = "insufficient_self_control_discipline"
    SUBJUGATION = "subjugation"
    SELF_SACRIFICE = "self_sacrifice"
    APPROVAL_SEEKING_RECOGNITION_SEEKING = "approval_seeking_recognition_seeking"
    NEGATIVITY_PESSIMISM = "negativity_pessimism"
    EMOTIONAL_INHIBITION = "emotional_inhibition"
    UNRELENTING_STANDARDS_HYPERCRITICALNESS = "unrelenting_standards_hypercriticalness"
    PUNITIVENESS = "punitiveness"


@dataclass(frozen=True)
class SchemaInfo:
    schema_id: SchemaId
    variable_id: str  # "d.s"
    domain: Domain
    label: str


@dataclass(frozen=True)
class ItemDescriptor:
    canonical_id: str  # "d.s.q"
    item_id: str       # opaque "cmf..." id
    schema: SchemaInfo
    question: int
    position: int      # 1-based legacy position in canonical order
    reverse: bool = False
    weight: float = 1.0

    @property
    def schema_id(self) -> SchemaId:
        return self.schema.schema_id

    @property
    def variable_id(self) -> str:
        return self.schema.variable_id


@dataclass
class RawResponse:
    """One answer as it arrives from the quiz UI or a stored assessment row.

    Only one identity field needs to be set; when several are, the opaque
    ``item_id`` wins over ``canonical_id``, which wins over ``position``;
    an unclassified ``key`` is parsed last.
    """
    value: object
    item_id: Optional[str] = None
    canonical_id: Optional[str] = None
    position: Optional[Union[int, str]] = None
    key: object = None  # unclassified key, e.g. from a response map


@dataclass(frozen=True)
class NormalizedResponse:
    canonical_id: str
    schema_id: SchemaId
    raw_value: int
    value: int   # after reverse-scoring
    weight: float = 1.0


@dataclass
class SchemaScore:
    schema_id: SchemaId
    variable_id: str
    domain: Domain
    label: str
    n: int
    mean: float          # 1..6, unrounded unless requested
    index: float         # 0..100, unrounded unless requested

    def to_dict(self) -> Dict[str, object]:
        return {
            "schemaId": self.schema_id.value,
            "variableId": self.variable_id,
            "domain": self.domain.label,
            "label": self.label,
            "n": self.n,
            "mean": self.mean,
            "index": self.index,
        }


@dataclass
class RankingEntry:
    score: SchemaScore
    rank: int
    display_index: int
    low_confidence: bool = False

    @property
    def schema_id(self) -> SchemaId:
        return self.score.schema_id

    @property
    def index(self) -> float:
        return self.score.index

    def to_dict(self) -> Dict[str, object]:
        out = self.score.to_dict()
        out.update(
            {
                "rank": self.rank,
                "displayIndex": self.display_index,
                "lowConfidence": self.low_confidence,
            }
        )
        return out


@dataclass
class Top3:
    primary: Optional[RankingEntry] = None
    secondary: Optional[RankingEntry] = None
    tertiary: Optional[RankingEntry] = None

    def entries(self) -> List[RankingEntry]:
        return [e for e in (self.primary, self.secondary, self.tertiary) if e is not None]


@dataclass(frozen=True)
class Persona:
    schema_id: SchemaId
    public_name: str
    domain: Domain
    clinical_name: str
    schema_label: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "schemaId": self.schema_id.value,
            "publicName": self.public_name,
            "domain": self.domain.label,
            "clinicalName": self.clinical_name,
            "schemaLabel": self.schema_label,
        }


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    problem: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "problem": self.problem}


@dataclass
class AssessmentResult:
    mapping_version: str
    complete: bool
    scores: List[SchemaScore]
    ranking: List[RankingEntry]
    top3: Top3
    personas: Dict[SchemaId, Persona] = field(default_factory=dict)
