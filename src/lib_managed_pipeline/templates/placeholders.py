"""Placeholder job text for the custom region.

Purpose
    Produce the suggestion jobs written into the custom region for every
    configured ``(domain, prefix)`` pair, and the commented stub used when an
    existing document has no custom region yet.

Contents
    - ``render_placeholder``: text of one suggestion job, indented as a child of
      ``jobs``.
    - ``DEFAULT_CUSTOM_SECTION``: commented ``test-gate`` example.

System Role
    Supplies the text rendered by
    :func:`lib_managed_pipeline.application.custom_region.merge_placeholders`.
    Once written, a placeholder belongs to the user and is never regenerated.
"""

from __future__ import annotations

from typing import Final

from ..domain.config import PlaceholderEntry

DEFAULT_CUSTOM_SECTION: Final[str] = """\
  #=============================================================================
  # CUSTOM JOBS SECTION (Add your test, deploy, and remote-test jobs here)
  #=============================================================================
  # This section is preserved across regenerations. Add your custom jobs between
  # the START and END markers.
  #
  # Example: test-gate pattern (recommended for production workflows)
  # Uncomment and customize the example below to prevent deployments when tests fail.

  # test-gate:
  #   needs: [ ]  # Add all test job names (e.g., test-api, test-frontend)
  #   if: always()  # Add failure checks and success conditions
  #   runs-on: ubuntu-latest
  #   steps:
  #     - run: echo "All tests passed\""""


def render_placeholder(entry: PlaceholderEntry) -> str:
    """Return the YAML text of the suggestion job for *entry*.

    Examples
    --------
    >>> print(render_placeholder(PlaceholderEntry("api", "test")).splitlines()[0])
      test-api:
    >>> "needs.changes.outputs.api == 'true'" in render_placeholder(PlaceholderEntry("api", "test"))
    True
    """

    domain, prefix = entry.domain, entry.prefix
    return f"""\
  {entry.name}:
    needs: changes
    if: ${{{{ needs.changes.outputs.{domain} == 'true' }}}}
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
        with:
          ref: ${{{{ inputs.commitSha || github.sha }}}}
      # Replace with your {domain} {prefix} logic
      - name: Run {prefix} for {domain}
        run: |
          echo "Running {prefix} for {domain} domain"
          echo "Replace this with your actual {prefix} commands\""""
