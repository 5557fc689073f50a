from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from cryptobrief.form.overlay import overlay_state
from cryptobrief.form.state import FormState, initial_form_state
from cryptobrief.form.templates import get_template
from cryptobrief.internal_core.config import load_config
from cryptobrief.llm.base import LLMError
from cryptobrief.llm.router import run_analysis
from cryptobrief.prompt.render import render_prompt


def _read_state(raw_path: str) -> dict[str, Any]:
    if raw_path == "-":
        text = sys.stdin.read()
    else:
        path = Path(raw_path).expanduser()
        if not path.exists():
            raise SystemExit(f"state file not found: {path}")
        text = path.read_text(encoding="utf-8")
    try:
        data = json.loads(text) if text.strip() else {}
    except json.JSONDecodeError as exc:
        raise SystemExit(f"state file is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemExit("state file must contain a JSON object of sections.")
    return data


def build_prompt(state_raw: dict[str, Any], template_id: str | None = None) -> str:
    state = FormState.from_raw(state_raw)
    template = None
    if template_id:
        template = get_template(template_id)
        state = overlay_state(initial_form_state(), template.data, working=state)
    return render_prompt(state, template=template)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Render a crypto research brief prompt from a form-state JSON file"
    )
    parser.add_argument(
        "--state",
        default="-",
        help="Path to form-state JSON (section -> field -> value). Use '-' for stdin (default).",
    )
    parser.add_argument(
        "--template",
        default=None,
        help="Template id to overlay before rendering (identity fields from --state are kept).",
    )
    parser.add_argument(
        "--analyze",
        choices=["deep", "grounded"],
        default=None,
        help="Also send the rendered prompt to the LLM in this mode.",
    )
    parser.add_argument(
        "--provider",
        choices=["gemini", "claude"],
        default=None,
        help="LLM provider for --analyze (default: CRYPTOBRIEF_LLM_PROVIDER).",
    )
    args = parser.parse_args(argv)

    config = load_config()
    logging.basicConfig(level=config.CRYPTOBRIEF_LOG_LEVEL.upper())

    try:
        prompt = build_prompt(_read_state(args.state), args.template)
    except ValueError as exc:
        raise SystemExit(str(exc)) from exc
    print(prompt, end="")

    if not args.analyze:
        return

    try:
        result = asyncio.run(
            run_analysis(prompt, mode=args.analyze, provider=args.provider, config=config)
        )
    except (LLMError, ValueError) as exc:
        raise SystemExit(f"analysis failed: {exc}") from exc

    print(f"\n--- {result.provider} {result.model} ---\n")
    print(result.text)
    if result.citations:
        print("\nSources:")
        for citation in result.citations:
            print(f"- {citation.title or citation.url}: {citation.url}")


if __name__ == "__main__":
    main()
