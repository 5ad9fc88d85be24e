"""Value objects for raw and per-data-type expression evidence.

Enum values are the strings written to exported files, so they double as
the external column vocabulary.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NoReturn, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from exprcall_pipeline.exceptions import InvariantViolationError


class DataType(str, Enum):
    AFFYMETRIX = "Affymetrix"
    RNA_SEQ = "RNA-Seq"
    EST = "EST"
    IN_SITU = "In situ"


# Data types able to produce differential expression analyses
DIFF_DATA_TYPES = (DataType.AFFYMETRIX, DataType.RNA_SEQ)


class DetectionFlag(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    NO_DATA = "no data"


class DataQuality(str, Enum):
    HIGH = "high quality"
    LOW = "poor quality"
    NA = "NA"
    NO_DATA = "no data"


class DataPropagation(str, Enum):
    """Whether a call was observed at its condition or inferred from related ones."""

    DIRECT = "observed"
    PROPAGATED = "propagated"


class ComparisonFactor(str, Enum):
    """Axis of a differential expression analysis."""

    ANATOMY = "anatomy"
    DEVELOPMENT = "development"


class DiffCallType(str, Enum):
    OVER_EXPRESSED = "over-expression"
    UNDER_EXPRESSED = "under-expression"
    NOT_DIFF_EXPRESSED = "no diff expression"
    NOT_EXPRESSED = "not expressed"
    NO_DATA = "no data"


def unexpected(value) -> NoReturn:
    """Abort on an enumerated value a merge rule does not handle."""
    raise InvariantViolationError(f"Unexpected value: {value!r}")


def best_quality(qualities) -> DataQuality:
    """Return HIGH if any quality is HIGH, LOW otherwise.

    Only observed-data tiers are accepted.
    """
    result = DataQuality.LOW
    for quality in qualities:
        match quality:
            case DataQuality.HIGH:
                result = DataQuality.HIGH
            case DataQuality.LOW:
                pass
            case _:
                unexpected(quality)
    return result


@dataclass(frozen=True)
class Species:
    species_id: int
    scientific_name: str
    common_name: str = ""
    genome_version: str = ""
    genome_source: str = ""
    taxon_id: Optional[int] = None

    @property
    def latin_name(self) -> str:
        return self.scientific_name

    @property
    def lineage_taxon_id(self) -> int:
        """Taxon the species is attached to; NCBI species ids are taxa themselves."""
        return self.species_id if self.taxon_id is None else self.taxon_id


@dataclass(frozen=True)
class Gene:
    gene_id: str
    name: str
    species_id: int


@dataclass(frozen=True)
class Condition:
    """Anatomical entity and developmental stage, optionally scoped to a species.

    ``species_id=None`` is a species-neutral (homology-level) condition.
    """

    anat_entity_id: str
    dev_stage_id: str
    species_id: Optional[int] = None

    def with_anat_entity(self, anat_entity_id: str) -> "Condition":
        return Condition(anat_entity_id, self.dev_stage_id, self.species_id)

    def with_dev_stage(self, dev_stage_id: str) -> "Condition":
        return Condition(self.anat_entity_id, dev_stage_id, self.species_id)

    def sort_key(self) -> tuple:
        species = -1 if self.species_id is None else self.species_id
        return (species, self.anat_entity_id, self.dev_stage_id)


class DataTypeObservation(BaseModel):
    """Detection call of one data type for a gene in a condition.

    ``source_conflict`` marks a PRESENT call kept after the data type itself
    reported both presence and absence.
    """

    model_config = ConfigDict(frozen=True)

    gene_id: str
    condition: Condition
    data_type: DataType
    detection_flag: DetectionFlag
    quality: DataQuality
    observed: DataPropagation = DataPropagation.DIRECT
    source_conflict: bool = False

    @model_validator(mode="after")
    def check_flag_quality(self) -> "DataTypeObservation":
        if self.data_type is DataType.EST and self.detection_flag is DetectionFlag.ABSENT:
            raise ValueError("EST data never produce absent calls")
        if (self.detection_flag is DetectionFlag.NO_DATA) != (
            self.quality is DataQuality.NO_DATA
        ):
            raise ValueError(
                f"Detection flag {self.detection_flag.name} incompatible "
                f"with quality {self.quality.name}"
            )
        if self.quality is DataQuality.NA:
            raise ValueError("NA quality is reserved for ambiguous summaries")
        if self.source_conflict and self.detection_flag is not DetectionFlag.PRESENT:
            raise ValueError("Only PRESENT calls can result from a data type conflict")
        return self


class DiffAnalysisResult(BaseModel):
    """Outcome of one differential expression analysis for a gene in a condition."""

    model_config = ConfigDict(frozen=True)

    analysis_id: str
    gene_id: str
    condition: Condition
    data_type: DataType
    comparison_factor: ComparisonFactor
    call: DiffCallType
    p_value: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="p-value (or best corrected p-value) of the call",
    )
    conditions_compared: int = Field(
        ...,
        ge=3,
        description="Number of conditions compared in the analysis",
    )

    @model_validator(mode="after")
    def check_data_type(self) -> "DiffAnalysisResult":
        if self.data_type not in DIFF_DATA_TYPES:
            raise ValueError(
                f"{self.data_type.name} data cannot produce differential expression results"
            )
        return self
