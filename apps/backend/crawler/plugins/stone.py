"""
Stone careers (vagas.com.br) adapter.

Reuses the InfoJobs listing flow without the quality gate.
"""
from core.models import SourceType
from .infojobs import InfoJobsAdapter


class StoneAdapter(InfoJobsAdapter):
    kind = "stone"
    vendor_type = SourceType.VAGAS
    default_name = "Stone"
    company_fallback = "Stone"
    apply_quality_gate = False
