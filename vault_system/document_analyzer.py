"""
Document Analyzer boundary

Field extraction from document images is done by an external service.
The vault only relies on analyze(image_bytes, mime_type) returning a
document type and key/value fields. MockDocumentAnalyzer stands in when
no service is configured, and fallback_result() when the service fails.
"""

import random
from dataclasses import dataclass, field
from typing import List

from .models import Field


@dataclass
class AnalysisResult:
    document_type: str
    fields: List[Field] = field(default_factory=list)


class DocumentAnalyzer:
    """Interface of the external document analyzer"""

    def analyze(self, image_bytes: bytes, mime_type: str) -> AnalysisResult:
        raise NotImplementedError


class MockDocumentAnalyzer(DocumentAnalyzer):
    """Returns a fixed identity card with a random document number"""

    def analyze(self, image_bytes: bytes, mime_type: str) -> AnalysisResult:
        return AnalysisResult(
            document_type="Mock Identity Card",
            fields=[
                Field("Full Name", "Jane Doe"),
                Field("Document ID", f"DOC-{random.randint(0, 999999)}"),
                Field("Date of Issue", "2023-10-27"),
                Field("Expiry Date", "2028-10-26"),
                Field("Issuing Authority", "Govt. of Simulation"),
            ]
        )


def fallback_result() -> AnalysisResult:
    """Degraded result used when the analyzer raises"""
    return AnalysisResult(
        document_type="Fallback Document",
        fields=[
            Field("Full Name", "Jane Doe (Fallback)"),
            Field("Document ID", f"ERR-{random.randint(0, 999999)}"),
            Field("Date of Issue", "2023-10-27"),
        ]
    )
