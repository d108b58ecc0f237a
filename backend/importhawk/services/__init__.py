"""Services module for the import pipeline.

Normalization and pricing are pure; the executor drives one product
through the destination catalog and records the outcome.
"""

from importhawk.services.image_pipeline import ImagePipeline, LocalObjectStore, ObjectStore
from importhawk.services.import_executor import ImportExecutor, ImportOutcome
from importhawk.services.normalizer import Normalizer
from importhawk.services.price_transformer import PriceTransformer
from importhawk.services.variant_generator import VariantGenerator

__all__ = [
    "ImagePipeline",
    "LocalObjectStore",
    "ObjectStore",
    "ImportExecutor",
    "ImportOutcome",
    "Normalizer",
    "PriceTransformer",
    "VariantGenerator",
]
