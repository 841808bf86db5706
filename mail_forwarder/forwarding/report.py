"""Plain-text rendering of a run summary using Jinja2."""

import logging
from typing import Optional

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from .models import RunState, RunSummary

logger = logging.getLogger(__name__)


class SummaryRenderError(Exception):
    """Raised when the summary template cannot be rendered."""

    pass


class SummaryRenderer:
    """Renders the end-of-run summary shown on the console and in the log.

    At most ``max_failures_listed`` failed items are listed individually.
    """

    def __init__(
        self,
        template_dir: str = "templates",
        template_name: str = "run_summary.txt.j2",
        max_failures_listed: int = 20,
    ):
        self.template_name = template_name
        self.max_failures_listed = max_failures_listed
        self.env = Environment(
            loader=PackageLoader("mail_forwarder.forwarding", template_dir),
            autoescape=False,
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )

    def render(self, summary: RunSummary, run_id: str, state: Optional[RunState] = None) -> str:
        """Render ``summary`` for the run ``run_id``.

        Raises:
            SummaryRenderError: If template rendering fails
        """
        failures = summary.failed_outcomes
        context = {
            "summary": summary,
            "run_id": run_id,
            "state": (state or RunState.DONE).value.upper(),
            "failures": failures[: self.max_failures_listed],
            "more_failures": max(0, len(failures) - self.max_failures_listed),
        }
        try:
            return self.env.get_template(self.template_name).render(context)
        except TemplateError as e:
            error_msg = f"Summary rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise SummaryRenderError(error_msg) from e
