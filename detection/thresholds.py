"""Threshold resolver.

Maps a job identifier to the detection thresholds that apply to it: the
global defaults, overlaid with the overrides of the job's group, with any
remaining zero fields replaced by built-in defaults.

Groups are derived from the job identifier. A configured group wins when
"<name>_" prefixes the identifier; otherwise a handful of well-known job
prefixes map to built-in group names; everything else is "default".
"""

import re

from schemas.thresholds import DetectionThresholds, GroupOverride

DEFAULT_GROUP = "default"

_BUILTIN_GROUPS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"^indexer_"), "index"),
    (re.compile(r"^consumers_"), "consumers"),
    (re.compile(r"^ddg_automation_"), "ddg_automation"),
    (re.compile(r"^catalog_"), "catalog"),
    (re.compile(r"^backend_"), "backend"),
    (re.compile(r"^sales_"), "sales"),
)


class ThresholdResolver:
    """Resolve effective thresholds per job.

    Resolution is cheap and done on every poll. The engine never caches
    the result, so configuration swapped in between polls takes effect on
    the next one.

    Attributes:
        _defaults: Global thresholds, possibly with zero placeholders.
        _overrides: Configured groups keyed by name, in configuration order.
    """

    def __init__(
        self,
        defaults: DetectionThresholds | None = None,
        overrides: list[GroupOverride] | None = None,
    ) -> None:
        self._defaults = defaults or DetectionThresholds()
        self._overrides: dict[str, GroupOverride] = {}
        for override in overrides or []:
            if override.name in self._overrides:
                raise ValueError(f"Group override '{override.name}' is defined twice.")
            self._overrides[override.name] = override

    def group_for(self, job_id: str) -> str:
        """Return the group name a job identifier belongs to."""
        for name in self._overrides:
            if job_id.startswith(f"{name}_"):
                return name

        for pattern, name in _BUILTIN_GROUPS:
            if pattern.match(job_id):
                return name

        return DEFAULT_GROUP

    def resolve(self, job_id: str) -> DetectionThresholds:
        """Return the fully resolved thresholds for one job."""
        override = self._overrides.get(self.group_for(job_id))
        if override is None:
            return self._defaults.with_defaults()
        return self._defaults.model_copy(update=override.overrides()).with_defaults()

    def resolve_global(self) -> DetectionThresholds:
        """Return the global thresholds with built-in defaults applied.

        Used for settings that are not per job: the lookback window and the
        scheduler liveness check.
        """
        return self._defaults.with_defaults()
