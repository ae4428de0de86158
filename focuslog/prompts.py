"""
Prompts for the weekly AI summary.
"""

COACH_SYSTEM_PROMPT = """You are a high-performance productivity coach reviewing a user's focus log.

DATA FORMAT:
- One block per calendar day
- Each session line: category / topic, focused hours vs assigned (target) hours
- Assigned 0 means the session was logged from a live timer without a target

OUTPUT RULES:
1. Keep it short, "terminal style", and direct. No fluff.
2. Reference the actual categories and numbers from the data.
3. Plain text only, no markdown tables.
"""

WEEKLY_SUMMARY_PROMPT = """Here is my focus data for the last {days} logged days:

{entries}

Totals: {total_focused:.1f}h focused against {total_assigned:.1f}h assigned ({efficiency:.1f}% efficiency).

Analyze my performance.
1. Identify my strongest area.
2. Identify where I am slacking (Target vs Reality).
3. Give me 3 bullet points of specific, ruthless advice for next week.
"""

NO_DATA_MESSAGE = "No data available to analyze. Log some sessions first!"

FALLBACK_MESSAGE = (
    "AI coach is unavailable right now. Your analytics are still up to date - "
    "check the dashboard and try the summary again later."
)


def format_entries(entries: list) -> str:
    """Format entries (oldest first) as compact text for the LLM."""
    if not entries:
        return "No focus data available."

    blocks = []
    for entry in entries:
        lines = [f"[{entry.date}]"]
        for s in entry.sessions:
            topic = f" / {s.sub_category}" if s.sub_category else ""
            lines.append(f"- {s.category}{topic}: {s.focused:.2f}h focused, {s.assigned:.2f}h assigned")
        if entry.notes:
            notes = entry.notes
            lines.append(f"Notes: \"{notes[:200]}{'...' if len(notes) > 200 else ''}\"")
        blocks.append("\n".join(lines))

    return "\n\n".join(blocks)
