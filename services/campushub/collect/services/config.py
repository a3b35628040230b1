"""Per-module configuration for collection tasks."""

from dataclasses import dataclass
import re

from django.conf import settings

from ..errors import NotFound

_MODULE_RE = re.compile(r"^[a-z][a-z0-9]*$")

ACTIONS = (
    "create",
    "update",
    "publish",
    "close",
    "archive",
    "delete",
    "process",
    "export",
    "manage",
)


@dataclass(frozen=True)
class CollectModuleConfig:
    module: str
    template_bucket: str
    submission_bucket: str

    def perm(self, action: str) -> str:
        return f"{self.module}:{action}"


def get_module_config(module: str) -> CollectModuleConfig:
    """Resolve a configured module by name; unknown modules are NotFound."""
    name = (module or "").strip()
    modules = getattr(settings, "COLLECT_MODULES", {}) or {}
    if not _MODULE_RE.match(name) or name not in modules:
        raise NotFound("Unknown collection module")
    entry = modules[name]
    return CollectModuleConfig(
        module=name,
        template_bucket=entry.get("template_bucket") or f"{name}-templates",
        submission_bucket=entry.get("submission_bucket") or f"{name}-submissions",
    )


def configured_modules() -> list[CollectModuleConfig]:
    return [get_module_config(name) for name in sorted(getattr(settings, "COLLECT_MODULES", {}) or {})]
