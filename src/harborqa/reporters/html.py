"""Self-contained HTML report."""

from __future__ import annotations

import html
from datetime import datetime
from pathlib import Path
from typing import Any

from harborqa import __version__
from harborqa.core.suite import SuiteResult
from harborqa.core.test import TestResult
from harborqa.reporters.base import FileReporter


class HTMLReporter(FileReporter):
    """Single-file HTML report with a summary and one section per suite.

    No external assets are loaded, so the file can be attached to CI runs.
    """

    def __init__(self, output_path: str | Path | None = None, title: str = "HarborQA Test Report") -> None:
        super().__init__(output_path)
        self.title = title

    @property
    def file_extension(self) -> str:
        return ".html"

    def generate(self, results: list[SuiteResult]) -> str:
        summary = self.summarize(results)
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{html.escape(self.title)}</title>
    <style>
        :root {{
            --primary: #0e7490;
            --success: #22c55e;
            --warning: #f59e0b;
            --danger: #ef4444;
            --muted: #6b7280;
            --dark: #1f2937;
            --light: #f3f4f6;
            --border: #e5e7eb;
        }}
        * {{ box-sizing: border-box; margin: 0; padding: 0; }}
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto,
                'Helvetica Neue', Arial, sans-serif;
            background: var(--light);
            color: var(--dark);
            line-height: 1.6;
        }}
        .container {{ max-width: 1100px; margin: 0 auto; padding: 2rem; }}
        header {{
            background: linear-gradient(135deg, var(--primary), #155e75);
            color: white;
            padding: 2rem;
            border-radius: 8px;
            margin-bottom: 1.5rem;
        }}
        header .meta {{ opacity: 0.85; font-size: 0.9rem; }}
        .badge {{
            display: inline-block;
            padding: 0.15rem 0.6rem;
            border-radius: 999px;
            font-size: 0.8rem;
            font-weight: 600;
            color: white;
        }}
        .status-passed {{ background: var(--success); }}
        .status-failed, .status-error {{ background: var(--danger); }}
        .status-cancelled {{ background: var(--warning); }}
        .status-skipped {{ background: var(--muted); }}
        .stats {{
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(150px, 1fr));
            gap: 1rem;
            margin-bottom: 1.5rem;
        }}
        .card {{
            background: white;
            border: 1px solid var(--border);
            border-radius: 8px;
            padding: 1rem;
        }}
        .stat-value {{ font-size: 1.8rem; font-weight: 700; }}
        .stat-label {{ color: var(--muted); font-size: 0.85rem; }}
        .stat-success .stat-value {{ color: var(--success); }}
        .stat-danger .stat-value {{ color: var(--danger); }}
        .stat-warning .stat-value {{ color: var(--warning); }}
        .suite {{ margin-bottom: 1.5rem; }}
        .suite h2 {{ font-size: 1.2rem; display: flex; gap: 0.75rem; align-items: center; }}
        .suite .path {{ color: var(--muted); font-size: 0.85rem; }}
        table {{ width: 100%; border-collapse: collapse; margin-top: 0.75rem; }}
        th, td {{ text-align: left; padding: 0.5rem; border-bottom: 1px solid var(--border); vertical-align: top; }}
        th {{ background: var(--light); font-weight: 600; }}
        pre {{
            background: var(--dark);
            color: #f9fafb;
            padding: 0.75rem;
            border-radius: 6px;
            overflow-x: auto;
            font-size: 0.8rem;
            white-space: pre-wrap;
        }}
        .errors {{ border-left: 4px solid var(--danger); padding-left: 0.75rem; margin-top: 0.75rem; }}
        .empty {{ color: var(--muted); font-style: italic; }}
    </style>
</head>
<body>
    <div class="container">
        {self._render_header(summary)}
        {self._render_stats(summary)}
        {self._render_suites(results)}
    </div>
</body>
</html>"""

    def _render_header(self, summary: dict[str, Any]) -> str:
        status = "passed" if summary["success"] else "failed"
        generated = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return f"""<header>
            <h1>{html.escape(self.title)} <span class="badge status-{status}">{status.upper()}</span></h1>
            <div class="meta">Generated {generated} &middot; harborqa {html.escape(__version__)}
                &middot; {summary["duration"]:.2f}s</div>
        </header>"""

    def _render_stats(self, summary: dict[str, Any]) -> str:
        cards = [
            ("Suites", summary["suites"], ""),
            ("Tests", summary["tests"], ""),
            ("Passed", summary["passed"], "stat-success"),
            ("Failed", summary["failed"], "stat-danger"),
            ("Skipped", summary["skipped"], "stat-warning"),
        ]
        rendered = "".join(
            f'<div class="card {css}"><div class="stat-value">{value}</div>'
            f'<div class="stat-label">{label}</div></div>'
            for label, value, css in cards
        )
        return f'<section class="stats">{rendered}</section>'

    def _render_suites(self, results: list[SuiteResult]) -> str:
        if not results:
            return '<p class="empty">No suites were run.</p>'
        return "\n".join(self._render_suite(result) for result in results)

    def _render_suite(self, result: SuiteResult) -> str:
        path = f'<div class="path">{html.escape(result.path)}</div>' if result.path else ""
        errors = []
        if result.setup_error is not None:
            errors.append(f"Setup: {result.setup_error}")
        errors.extend(result.errors)
        errors.extend(f"Cleanup: {error}" for error in result.cleanup_errors)
        error_block = ""
        if errors:
            items = "".join(f"<pre>{html.escape(str(error))}</pre>" for error in errors)
            error_block = f'<div class="errors">{items}</div>'

        if result.results:
            rows = "".join(self._render_test(test) for test in result.results)
            table = f"""<table>
                <thead><tr><th>Test</th><th>Status</th><th>Duration</th><th>Details</th></tr></thead>
                <tbody>{rows}</tbody>
            </table>"""
        else:
            table = '<p class="empty">No tests were run.</p>'

        return f"""<section class="card suite">
            <h2>{html.escape(result.name)} <span class="badge status-{result.status}">{result.status}</span>
                <small>{result.duration:.2f}s</small></h2>
            {path}
            {error_block}
            {table}
        </section>"""

    @staticmethod
    def _render_test(test: TestResult) -> str:
        details = f"<pre>{html.escape(test.message)}</pre>" if test.message and not test.passed else html.escape(test.message)
        return (
            f"<tr><td>{html.escape(test.name)}</td>"
            f'<td><span class="badge status-{test.status}">{test.status}</span></td>'
            f"<td>{test.duration:.2f}s</td>"
            f"<td>{details}</td></tr>"
        )
