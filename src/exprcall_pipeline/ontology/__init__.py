"""Ontologies of taxa, anatomical entities and developmental stages.

All three are modeled as the same immutable DAG type:
- Taxonomy: used to resolve the least common ancestor of compared species
- Anatomy: multiple parents allowed (is_a / part_of)
- Developmental stages: nested stages of the life cycle
"""

from exprcall_pipeline.ontology.graph import Ontology
from exprcall_pipeline.ontology.models import AnatEntity, DevStage, Taxon

__all__ = [
    "Ontology",
    "AnatEntity",
    "DevStage",
    "Taxon",
]
