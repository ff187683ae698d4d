"""
Source adapter tests over httpx.MockTransport.
"""

import asyncio
import json

import httpx
import pytest

from core.config import (
    CorporateCareerSource,
    GupySource,
    InfoJobsSource,
    JsonLdSource,
    Settings,
    SourcesConfig,
    StoneSource,
    WorkdaySource,
)
from core.errors import RunCancelled
from core.fingerprint import compute_fingerprint
from core.models import EmploymentType, FetchOptions, SalaryRange, SourceType, WorkMode
from crawler.plugins.base import resolve_max_detail
from crawler.plugins.corporate import CorporateCareersAdapter
from crawler.plugins.fixture import FixtureAdapter, infer_location
from crawler.plugins.gupy import GupyAdapter, build_endpoint_candidates
from crawler.plugins.infojobs import InfoJobsAdapter
from crawler.plugins.jsonld import JsonLdAdapter
from crawler.plugins.registry import AdapterRegistry, build_adapters, get_adapter_registry
from crawler.plugins.stone import StoneAdapter
from crawler.plugins.workday import WorkdayAdapter

SEARCH_URL = "https://www.infojobs.com.br/vagas.aspx?palabra=TI"
GOOD_JOB_URL = "https://www.infojobs.com.br/vaga-de-desenvolvedor-python-em-sao-paulo__1234567.aspx"
BAD_JOB_URL = "https://www.infojobs.com.br/vaga-de-analista-de-suporte__7654321.aspx"
FILLER = "<!-- " + "-" * 1300 + " -->"

LISTING_HTML = f"""
<html><body>
<div class="card">
  <a href="{GOOD_JOB_URL}">Desenvolvedor Python Senior</a>
  <span>Empresa: Acme Tecnologia</span>
  <span>Local: Sao Paulo - SP</span>
  <span>Salario: R$ 5.000,00 a R$ 7.000,00</span>
</div>
{FILLER}
<div class="card">
  <a href="{BAD_JOB_URL}">Analista de Suporte Junior</a>
</div>
</body></html>
"""

DETAIL_HTML = "<html><body><p>Procuramos pessoa com Python, Django e Docker. Trabalho remoto.</p></body></html>"


def ld_page(*nodes):
    scripts = "".join(f'<script type="application/ld+json">{json.dumps(n)}</script>' for n in nodes)
    return f"<html><head>{scripts}</head><body></body></html>"


class TestInfoJobsAdapter:
    def handler(self, requests):
        def _handle(request):
            requests.append(str(request.url))
            if str(request.url) == SEARCH_URL:
                return httpx.Response(200, text=LISTING_HTML)
            if str(request.url) == GOOD_JOB_URL:
                return httpx.Response(200, text=DETAIL_HTML)
            return httpx.Response(404)
        return _handle

    @pytest.mark.asyncio
    async def test_quality_gate_and_detail(self, make_client, collect):
        requests = []
        adapter = InfoJobsAdapter(InfoJobsSource(search_url=SEARCH_URL), make_client(self.handler(requests)))

        postings = await collect(adapter)

        assert len(postings) == 1
        posting = postings[0]
        assert posting.title == "Desenvolvedor Python Senior"
        assert posting.company.name == "Acme Tecnologia"
        assert posting.source.name == "InfoJobs"
        assert posting.source.vendor_type == SourceType.INFOJOBS
        assert posting.source.source_job_id == "1234567"
        assert posting.work_mode == WorkMode.REMOTE
        assert posting.salary == SalaryRange(5000.0, 7000.0, "BRL", None)
        assert posting.description == "Procuramos pessoa com Python, Django e Docker. Trabalho remoto."
        assert posting.tags == ["docker", "python"]
        assert posting.languages == ["pt-BR"]
        assert posting.metadata["searchUrl"] == SEARCH_URL
        assert posting.dedupe.fingerprint == compute_fingerprint(
            "Acme Tecnologia", posting.title, posting.location_text, WorkMode.REMOTE,
        )

        assert adapter.stats.skipped == 1
        assert adapter.stats.detail_fetched == 1
        assert BAD_JOB_URL not in requests

    @pytest.mark.asyncio
    async def test_no_detail_budget(self, make_client, collect):
        requests = []
        adapter = InfoJobsAdapter(InfoJobsSource(search_url=SEARCH_URL), make_client(self.handler(requests)))

        postings = await collect(adapter, max_detail=0)

        assert postings[0].description == ""
        assert requests == [SEARCH_URL]

    @pytest.mark.asyncio
    async def test_disabled_makes_no_requests(self, make_client, collect):
        requests = []
        adapter = InfoJobsAdapter(InfoJobsSource(enabled=False), make_client(self.handler(requests)))
        assert await collect(adapter) == []
        assert requests == []

    @pytest.mark.asyncio
    async def test_blocked_listing_yields_nothing(self, make_client, collect):
        adapter = InfoJobsAdapter(InfoJobsSource(search_url=SEARCH_URL), make_client(lambda r: httpx.Response(403)))
        assert await collect(adapter) == []
        assert adapter.stats.blocked == 1

    @pytest.mark.asyncio
    async def test_cancelled(self, make_client, collect):
        cancel = asyncio.Event()
        cancel.set()
        adapter = InfoJobsAdapter(InfoJobsSource(search_url=SEARCH_URL), make_client(self.handler([])))
        with pytest.raises(RunCancelled):
            await collect(adapter, cancel=cancel)


class TestStoneAdapter:
    @pytest.mark.asyncio
    async def test_company_fallback_without_quality_gate(self, make_client, collect):
        stone_url = "https://trabalheconosco.vagas.com.br/stone"
        html = f'<html><body><a href="{BAD_JOB_URL}">Dev</a></body></html>'

        def handler(request):
            if str(request.url) == stone_url:
                return httpx.Response(200, text=html)
            return httpx.Response(404)

        adapter = StoneAdapter(StoneSource(enabled=True, search_url=stone_url), make_client(handler))
        postings = await collect(adapter)

        assert len(postings) == 1
        posting = postings[0]
        assert posting.title == "Dev"
        assert posting.company.name == "Stone"
        assert posting.source.name == "Stone"
        assert posting.source.vendor_type == SourceType.VAGAS
        assert posting.dedupe.fingerprint == compute_fingerprint("Stone", "Dev", "", WorkMode.UNKNOWN)

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, make_client, collect):
        adapter = StoneAdapter(StoneSource(), make_client(lambda r: httpx.Response(200, text="")))
        assert await collect(adapter) == []


WORKDAY = WorkdaySource(
    enabled=True,
    base_host="acme.wd1.myworkdayjobs.com",
    site_path="/en-US/AcmeCareers",
    tenant="acme",
    site_name="AcmeCareers",
    company="Acme",
    name="AcmeWorkday",
    page_size=2,
    max_pages_per_run=5,
    max_detail_fetch=1,
)
LIST_PATH = "/wday/cxs/acme/AcmeCareers/jobs"


def workday_page(*ids):
    return {
        "total": 10,
        "jobPostings": [
            {
                "title": f"Software Engineer {i}",
                "externalPath": f"/job/Remote/Software-Engineer_{i}",
                "locationsText": "Remote - Brazil",
                "timeType": "Full time",
                "postedOn": "2024-05-01",
            }
            for i in ids
        ],
    }


class TestWorkdayAdapter:
    def handler(self, pages, calls):
        def _handle(request):
            if request.url.path == LIST_PATH:
                offset = json.loads(request.content)["offset"]
                calls.append(offset)
                page = pages.get(offset)
                if isinstance(page, httpx.Response):
                    return page
                return httpx.Response(200, json=page if page is not None else {"jobPostings": []})
            if request.url.path.startswith("/wday/cxs/acme/AcmeCareers/job/"):
                return httpx.Response(200, json={"jobPostingInfo": {"jobDescription": "<p>Java and AWS</p>"}})
            return httpx.Response(404)
        return _handle

    @pytest.mark.asyncio
    async def test_blocked_page_stops_pagination(self, make_client, collect):
        calls = []
        pages = {0: workday_page("R1", "R2"), 2: httpx.Response(403, text="denied"), 4: workday_page("R5")}
        adapter = WorkdayAdapter(WORKDAY, make_client(self.handler(pages, calls)))

        postings = await collect(adapter)

        assert [p.source.source_job_id for p in postings] == ["Software-Engineer_R1", "Software-Engineer_R2"]
        assert calls == [0, 2]
        assert adapter.stats.blocked == 1

        first, second = postings
        assert first.source.url == "https://acme.wd1.myworkdayjobs.com/job/Remote/Software-Engineer_R1"
        assert first.company.name == "Acme"
        assert first.source.name == "AcmeWorkday"
        assert first.work_mode == WorkMode.REMOTE
        assert first.description == "Java and AWS"
        assert first.tags == ["aws", "java"]
        assert first.languages == ["pt-BR", "en-US"]
        assert first.metadata["listEndpointPath"] == LIST_PATH
        # detail budget of 1 is spent on the first item
        assert second.description == ""
        assert adapter.stats.detail_fetched == 1

    @pytest.mark.asyncio
    async def test_empty_page_ends_and_bad_page_counts_error(self, make_client, collect):
        calls = []
        pages = {0: httpx.Response(200, text="not json"), 2: workday_page("R3")}
        adapter = WorkdayAdapter(WORKDAY, make_client(self.handler(pages, calls)))

        postings = await collect(adapter, max_detail=0)

        assert [p.source.source_job_id for p in postings] == ["Software-Engineer_R3"]
        assert calls == [0, 2, 4]
        assert adapter.stats.parse_errors == 1

    @pytest.mark.asyncio
    async def test_item_budget(self, make_client, collect):
        calls = []
        pages = {0: workday_page("R1", "R2"), 2: workday_page("R3", "R4")}
        adapter = WorkdayAdapter(WORKDAY, make_client(self.handler(pages, calls)))

        postings = await collect(adapter, max_items=3, max_detail=0)

        assert len(postings) == 3
        assert calls == [0, 2]

    def test_detail_budget_capped_by_source(self):
        adapter = WorkdayAdapter(WORKDAY, None)
        assert adapter.resolve_detail_budget(FetchOptions(20, 5)) == 1
        assert adapter.resolve_detail_budget(FetchOptions(20, 0)) == 0


CAREERS_URL = "https://careers.example.com/vagas"
TOTVS_URL = "https://www.totvs.com/carreiras/vagas/"
TOTVS_HTML = """
<ul>
  <li><a href="/carreiras/vagas/desenvolvedor-java-12345">Desenvolvedor Java</a> <span>Sao Paulo, SP</span></li>
  <li><a href="/carreiras/vagas/analista-de-suporte-67890">Analista de Suporte</a> <span>Remoto</span></li>
</ul>
"""


class TestCorporateCareersAdapter:
    @pytest.mark.asyncio
    async def test_jsonld_with_detail_description(self, make_client, collect):
        listing = ld_page({
            "@type": "JobPosting",
            "title": "Engenheira de Dados",
            "url": "https://careers.example.com/vagas/1",
            "hiringOrganization": {"name": "Initech"},
            "jobLocation": {"address": {"addressLocality": "Recife", "addressRegion": "PE"}},
            "employmentType": "INTERN",
        })
        detail = ld_page({
            "@type": "JobPosting",
            "title": "Engenheira de Dados",
            "url": "https://careers.example.com/vagas/1",
            "description": "Estágio com Python e Kafka",
        })

        def handler(request):
            if str(request.url) == CAREERS_URL:
                return httpx.Response(200, text=listing)
            if str(request.url) == "https://careers.example.com/vagas/1":
                return httpx.Response(200, text=detail)
            return httpx.Response(404)

        config = CorporateCareerSource(name="Initech", type="CareersPage", start_url=CAREERS_URL)
        adapter = CorporateCareersAdapter(config, make_client(handler))
        postings = await collect(adapter)

        assert len(postings) == 1
        posting = postings[0]
        assert adapter.vendor_type == SourceType.CAREERS_PAGE
        assert posting.source.vendor_type == SourceType.CAREERS_PAGE
        assert posting.description == "Estágio com Python e Kafka"
        assert posting.employment_type == EmploymentType.INTERNSHIP
        assert posting.tags == ["kafka", "python"]
        assert posting.languages == ["pt-BR"]
        assert posting.metadata["parser"] == "json-ld"

    @pytest.mark.asyncio
    async def test_totvs_anchor_fallback(self, make_client, collect):
        def handler(request):
            if str(request.url) == TOTVS_URL:
                return httpx.Response(200, text=TOTVS_HTML)
            if request.url.path.endswith("desenvolvedor-java-12345"):
                return httpx.Response(200, text="<p>Requisitos: Java e Kubernetes</p>")
            return httpx.Response(404)

        config = CorporateCareerSource(name="Totvs", start_url=TOTVS_URL, max_detail_fetch=1)
        adapter = CorporateCareersAdapter(config, make_client(handler))
        postings = await collect(adapter)

        assert [p.title for p in postings] == ["Desenvolvedor Java", "Analista de Suporte"]
        java, support = postings
        assert java.company.name == "TOTVS"
        assert java.location_text == "Sao Paulo, SP"
        assert java.source.source_job_id == "12345"
        assert java.description == "Requisitos: Java e Kubernetes"
        assert java.metadata["parser"] == "totvs-html"
        assert java.source.vendor_type == SourceType.CORPORATE_CAREERS
        assert support.work_mode == WorkMode.REMOTE
        assert support.description == ""

    @pytest.mark.asyncio
    async def test_source_detail_limit_capped_by_run_budget(self, make_client, collect):
        detail_requests = []

        def handler(request):
            if str(request.url) == TOTVS_URL:
                return httpx.Response(200, text=TOTVS_HTML)
            detail_requests.append(request)
            return httpx.Response(200, text="<p>Requisitos</p>")

        config = CorporateCareerSource(name="Totvs", start_url=TOTVS_URL, max_detail_fetch=5)
        adapter = CorporateCareersAdapter(config, make_client(handler))
        postings = await collect(adapter, max_detail=0)

        assert len(postings) == 2
        assert detail_requests == []
        assert adapter.stats.detail_fetched == 0

    @pytest.mark.parametrize("run_budget,source_limit,expected", [
        (0, 5, 0),
        (20, 5, 5),
        (3, None, 3),
        (3, 0, 0),
    ])
    def test_resolve_max_detail(self, run_budget, source_limit, expected):
        assert resolve_max_detail(FetchOptions(20, run_budget), source_limit) == expected

    @pytest.mark.asyncio
    async def test_requires_js_is_skipped(self, make_client, collect):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text='<div id="root"></div><a href="/job/1">Software Developer</a>')

        config = CorporateCareerSource(name="ThoughtWorks", start_url="https://www.thoughtworks.com/careers/jobs")
        adapter = CorporateCareersAdapter(config, make_client(handler))

        assert adapter.requires_js()
        assert await collect(adapter) == []
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_missing_start_url(self, make_client, collect):
        adapter = CorporateCareersAdapter(CorporateCareerSource(name="Empty"), make_client(lambda r: httpx.Response(200)))
        assert await collect(adapter) == []


class TestJsonLdAdapter:
    @pytest.mark.asyncio
    async def test_postings(self, make_client, collect):
        page = ld_page({
            "@type": "JobPosting",
            "title": "Backend Engineer",
            "url": "/jobs/backend",
            "hiringOrganization": {"name": "Globex"},
            "jobLocationType": "TELECOMMUTE",
            "applicantLocationRequirements": {"name": "Remote - Brazil"},
            "description": "Golang and Postgres services",
            "employmentType": "CONTRACTOR",
        })
        adapter = JsonLdAdapter(
            JsonLdSource(name="Globex", start_url="https://globex.example.com/careers"),
            make_client(lambda r: httpx.Response(200, text=page)),
        )
        postings = await collect(adapter)

        assert len(postings) == 1
        posting = postings[0]
        assert posting.source.url == "https://globex.example.com/jobs/backend"
        assert posting.source.vendor_type == SourceType.JSONLD
        assert posting.work_mode == WorkMode.REMOTE
        assert posting.employment_type == EmploymentType.CONTRACTOR
        assert posting.tags == ["postgres", "golang"]
        assert posting.languages == ["en"]

    @pytest.mark.asyncio
    async def test_page_without_jsonld(self, make_client, collect):
        adapter = JsonLdAdapter(
            JsonLdSource(name="Globex", start_url="https://globex.example.com/careers"),
            make_client(lambda r: httpx.Response(200, text="<html><body>Hi</body></html>")),
        )
        assert await collect(adapter) == []


class TestGupyAdapter:
    def test_endpoint_candidates(self):
        assert build_endpoint_candidates("https://acme.gupy.io/vagas") == [
            "https://acme.gupy.io/vagas",
            "https://acme.gupy.io/jobs.json",
            "https://acme.gupy.io/jobs",
            "https://acme.gupy.io/",
            "https://acme.gupy.io/vagas.json",
            "https://acme.gupy.io/vagas/jobs",
            "https://acme.gupy.io/vagas/jobs.json",
        ]

    def test_non_gupy_host_only_configured_url(self):
        assert build_endpoint_candidates("https://careers.acme.com/vagas") == ["https://careers.acme.com/vagas"]
        assert build_endpoint_candidates("not a url") == []

    @pytest.mark.asyncio
    async def test_first_candidate_with_jobs_wins(self, make_client, collect):
        requested = []
        payload = {"jobs": [{"id": 11, "name": "Dev Python", "jobUrl": "/jobs/11", "city": "Remoto"}]}

        def handler(request):
            requested.append(str(request.url))
            if request.url.path == "/jobs.json":
                return httpx.Response(200, json=payload)
            return httpx.Response(200, text="<html><body>Carregando...</body></html>")

        adapter = GupyAdapter(GupySource(name="Acme", company_base_url="https://acme.gupy.io"), make_client(handler))
        postings = await collect(adapter)

        assert requested == ["https://acme.gupy.io/", "https://acme.gupy.io/jobs.json"]
        assert len(postings) == 1
        posting = postings[0]
        assert posting.company.name == "Acme"
        assert posting.source.source_job_id == "11"
        assert posting.source.url == "https://acme.gupy.io/jobs/11"
        assert posting.work_mode == WorkMode.REMOTE
        assert posting.metadata["resolvedEndpoint"] == "https://acme.gupy.io/jobs.json"
        assert posting.metadata["parser"] == "gupy-json"

    @pytest.mark.asyncio
    async def test_no_candidate_yields_jobs(self, make_client, collect):
        adapter = GupyAdapter(
            GupySource(name="Acme", company_base_url="https://acme.gupy.io"),
            make_client(lambda r: httpx.Response(404)),
        )
        assert await collect(adapter) == []


class TestFixtureAdapter:
    def write(self, path, name, payload):
        (path / name).write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")

    @pytest.mark.asyncio
    async def test_reads_valid_samples(self, tmp_path, collect):
        self.write(tmp_path, "sample_source_b.json", {
            "source": "LinkedIn",
            "jobId": "li-1",
            "title": "Python Developer",
            "company": "Acme",
            "location": "Curitiba - PR (Hybrid)",
            "url": "https://www.linkedin.com/jobs/view/1",
            "description": "",
            "postedAt": "2024-05-02T10:00:00Z",
        })
        self.write(tmp_path, "sample_source_a.json", "{broken")
        self.write(tmp_path, "sample_source_c.json", {"source": "Lever", "title": "No company"})
        self.write(tmp_path, "other.json", {"source": "Lever", "title": "x", "company": "y", "url": "z"})

        adapter = FixtureAdapter(tmp_path)
        postings = await collect(adapter)

        assert len(postings) == 1
        posting = postings[0]
        assert posting.source.name == "LinkedIn"
        assert posting.source.vendor_type == SourceType.LINKEDIN
        assert posting.source.source_job_id == "li-1"
        assert posting.location.country == "BR"
        assert posting.work_mode == WorkMode.HYBRID
        assert posting.languages == ["en"]
        assert posting.metadata["fixtureFile"] == "sample_source_b.json"
        assert adapter.stats.parse_errors == 2

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path, collect):
        assert await collect(FixtureAdapter(tmp_path / "missing")) == []

    @pytest.mark.parametrize("text,country", [
        ("São Paulo, Brasil", "BR"),
        ("Curitiba - PR", "BR"),
        ("Lisbon, Portugal", None),
    ])
    def test_infer_location(self, text, country):
        assert infer_location(text).country == country

    def test_infer_location_blank(self):
        assert infer_location("") is None


class TestRegistry:
    def test_build_order(self, make_client, tmp_path):
        sources = SourcesConfig(
            corporate_careers=[CorporateCareerSource(name="Totvs", start_url=TOTVS_URL)],
            json_ld=[JsonLdSource(name="Globex", start_url="https://globex.example.com")],
            gupy=[GupySource(name="Acme", company_base_url="https://acme.gupy.io")],
        )
        settings = Settings(sources=sources, samples_path=str(tmp_path))
        adapters = build_adapters(settings, make_client(lambda r: httpx.Response(404)))

        assert [a.name for a in adapters] == [
            "InfoJobs", "Stone", "AccentureWorkday", "Totvs", "Globex", "Acme", "Fixtures",
        ]

    def test_no_fixtures_without_samples_path(self, make_client):
        adapters = build_adapters(Settings(), make_client(lambda r: httpx.Response(404)))
        assert [a.kind for a in adapters] == ["infojobs", "stone", "workday"]

    def test_registry_contents(self):
        kinds = {entry["kind"] for entry in get_adapter_registry().list_adapters()}
        assert kinds == {"infojobs", "stone", "workday", "corporate_careers", "json_ld", "gupy", "fixtures"}

    def test_unknown_kind(self):
        with pytest.raises(KeyError):
            AdapterRegistry().create("indeed", None, None)
