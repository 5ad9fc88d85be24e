"""Reference data nodes held by the ontologies."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Taxon:
    """Node of the NCBI-style taxonomy."""

    id: int
    scientific_name: str
    common_name: str = ""

    @property
    def name(self) -> str:
        return self.scientific_name


@dataclass(frozen=True)
class AnatEntity:
    """Anatomical entity (e.g. UBERON term)."""

    id: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class DevStage:
    """Developmental and life stage."""

    id: str
    name: str
    description: str = ""
