"""Unit tests for the env_exposure rule."""

from webguard.corpus import Corpus, source_file_from_text
from webguard.findings.models import Confidence, Severity, VulnerabilityType
from webguard.rules.env_exposure import EnvExposureRule, assess_env_variable, is_client_safe_env_var


def _run_rule(content: str, path: str = "components/Checkout.tsx", parse: bool = True) -> list:
    """Build a one-file corpus, run EnvExposureRule, return findings."""
    corpus = Corpus([source_file_from_text(path, content, parse=parse)])
    return EnvExposureRule().detect(corpus)


CHECKOUT = (
    "export function Checkout() {\n"
    "  const key = process.env.STRIPE_SECRET_KEY;\n"
    "  return <div>{key}</div>;\n"
    "}\n"
)


def test_server_only_variable_in_component():
    """A known server-only variable read by a component is high confidence."""
    findings = _run_rule(CHECKOUT)
    assert len(findings) == 1
    f = findings[0]
    assert f.type == VulnerabilityType.ENVIRONMENT_EXPOSURE
    assert f.severity == Severity.HIGH
    assert f.confidence == Confidence.HIGH
    assert f.metadata["env_variable"] == "STRIPE_SECRET_KEY"
    assert f.metadata["is_server_only"] is True
    assert (f.location.line, f.location.column) == (2, 15)


def test_public_variables_ignored():
    """Prefixed public variables and NODE_ENV are safe in the browser."""
    source = (
        "export function Footer() {\n"
        "  const url = process.env.NEXT_PUBLIC_SITE_URL;\n"
        "  const mode = process.env.NODE_ENV;\n"
        "  return <a href={url}>{mode}</a>;\n"
        "}\n"
    )
    assert _run_rule(source, path="components/Footer.tsx") == []


def test_other_variables_graded_by_name():
    """Sensitive-sounding names are medium confidence, others low."""
    source = (
        "export function Map() {\n"
        "  const a = process.env.MAPS_KEY;\n"
        "  const b = process.env.SITE_TITLE;\n"
        "  return <div>{a}{b}</div>;\n"
        "}\n"
    )
    findings = _run_rule(source, path="components/Map.tsx")
    assert [(f.metadata["env_variable"], f.confidence) for f in findings] == [
        ("MAPS_KEY", Confidence.MEDIUM),
        ("SITE_TITLE", Confidence.LOW),
    ]


def test_server_files_skipped():
    """API handlers and /server/ modules may read any variable."""
    source = "export const key = process.env.STRIPE_SECRET_KEY;\n"
    assert _run_rule(source, path="pages/api/pay.ts") == []
    assert _run_rule(source, path="src/server/pay.ts") == []


def test_pattern_fallback_without_tree():
    """Unparsed files report the server-only pattern once per access."""
    findings = _run_rule("const url = process.env.DATABASE_URL;\n", path="components/Banner.jsx", parse=False)
    assert len(findings) == 1
    assert findings[0].metadata["pattern_id"] == "server-env-in-client"
    assert findings[0].confidence == Confidence.HIGH


def test_assess_env_variable():
    """Grading of single variable names."""
    assert assess_env_variable("VITE_API_URL") is None
    assert assess_env_variable("JWT_SECRET")[1:] == (Confidence.HIGH, True)
    assert assess_env_variable("PAYMENT_PRIVATE_PEM")[1:] == (Confidence.MEDIUM, False)
    assert assess_env_variable("PORT")[1:] == (Confidence.LOW, False)
    assert is_client_safe_env_var("REACT_APP_TITLE")
    assert not is_client_safe_env_var("SECRET_KEY")
