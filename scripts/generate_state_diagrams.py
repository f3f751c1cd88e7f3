"""
Generate Mermaid diagrams from the funnel stage transitions and the
conversation / bulk job status lifecycles.

Usage:
    python scripts/generate_state_diagrams.py                  # print
    python scripts/generate_state_diagrams.py --update-design  # rewrite the DESIGN.md block
    python scripts/generate_state_diagrams.py --check          # exit 1 when DESIGN.md is stale (CI)
"""
import argparse
import re
import sys
from enum import Enum
from pathlib import Path

from dealer_bot.state_machine.states import STAGE_TRANSITIONS, Stage

DESIGN_MD = Path(__file__).resolve().parent.parent / "DESIGN.md"
START_MARKER = "<!-- STATE_DIAGRAMS_START -->"
END_MARKER = "<!-- STATE_DIAGRAMS_END -->"

STAGE_LABELS: dict[str, str] = {
    Stage.GREETING.value: "Vehicle type",
    Stage.BUDGET.value: "Budget",
    Stage.APPOINTMENT.value: "Test drive or call back",
    Stage.NAME.value: "Customer name",
    Stage.DATETIME.value: "Preferred time",
    Stage.CONFIRMED.value: "Booked",
}


def generate_mermaid_from_transitions(
    transitions: dict[Enum, list[Enum]],
    labels: dict[str, str],
    initial: Enum,
) -> str:
    """stateDiagram-v2 from a ``{stage: [targets]}`` mapping."""
    lines = ["stateDiagram-v2"]

    states: list[str] = []
    for source, targets in transitions.items():
        for state in (source, *targets):
            if state.value not in states:
                states.append(state.value)

    for value in states:
        lines.append(f"    {value} : {labels.get(value, value)}")
    lines.append("")
    lines.append(f"    [*] --> {initial.value}")
    lines.append("")

    for source, targets in transitions.items():
        for target in targets:
            lines.append(f"    {source.value} --> {target.value}")

    return "\n".join(lines)


def generate_conversation_status_diagram() -> str:
    return """stateDiagram-v2
    active : Active
    converted : Converted
    stopped : Stopped

    [*] --> active
    active --> converted : appointment or callback saved
    converted --> active : cancel
    active --> stopped : STOP / not interested
    converted --> stopped : STOP
    stopped --> active : START (slots cleared)"""


def generate_bulk_status_diagram() -> str:
    return """stateDiagram-v2
    pending : Pending
    sent : Sent
    failed : Failed
    blocked : Blocked
    cancelled : Cancelled

    [*] --> pending : campaign created
    pending --> sent : drain pass delivered
    pending --> failed : transport error
    pending --> blocked : blacklisted number
    pending --> cancelled : cancel pending / emergency stop
    sent --> [*]
    failed --> [*]
    blocked --> [*]
    cancelled --> [*]"""


def generate_all_diagrams() -> dict[str, str]:
    return {
        "Funnel stages (Stage)": generate_mermaid_from_transitions(
            STAGE_TRANSITIONS, STAGE_LABELS, Stage.GREETING,
        ),
        "Conversation status (ConversationStatus)": generate_conversation_status_diagram(),
        "Bulk job status (BulkMessageStatus)": generate_bulk_status_diagram(),
    }


def format_diagrams_as_markdown(diagrams: dict[str, str]) -> str:
    sections: list[str] = []
    for name, mermaid_code in diagrams.items():
        sections.append(f"#### {name}\n")
        sections.append(f"```mermaid\n{mermaid_code}\n```\n")
    return "\n".join(sections)


def _section(markdown_content: str) -> str:
    return f"{START_MARKER}\n\n### State diagrams\n\n{markdown_content}\n{END_MARKER}"


_BLOCK = re.compile(re.escape(START_MARKER) + r".*?" + re.escape(END_MARKER), re.DOTALL)


def update_design_md(markdown_content: str, path: Path = DESIGN_MD) -> None:
    content = path.read_text(encoding="utf-8")
    section = _section(markdown_content)
    if START_MARKER in content:
        content = _BLOCK.sub(lambda _: section, content)
    else:
        content = content.rstrip("\n") + "\n\n" + section + "\n"
    path.write_text(content, encoding="utf-8")
    print(f"Updated: {path}")


def check_design_md(markdown_content: str, path: Path = DESIGN_MD) -> bool:
    """True when the diagram block in ``path`` matches the code."""
    match = _BLOCK.search(path.read_text(encoding="utf-8"))
    if not match:
        print(f"Error: no diagram block in {path.name}")
        return False

    if match.group(0) == _section(markdown_content):
        print("Diagrams are in sync")
        return True

    print(f"Error: diagrams in {path.name} are stale")
    print("Run: python scripts/generate_state_diagrams.py --update-design")
    return False


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate Mermaid state diagrams")
    parser.add_argument("--update-design", action="store_true", help="rewrite the DESIGN.md diagram block")
    parser.add_argument("--check", action="store_true", help="fail when DESIGN.md is stale (CI)")
    args = parser.parse_args()

    markdown = format_diagrams_as_markdown(generate_all_diagrams())

    if args.check:
        sys.exit(0 if check_design_md(markdown) else 1)
    elif args.update_design:
        update_design_md(markdown)
    else:
        print(markdown)


if __name__ == "__main__":
    main()
