"""
TwiML documents returned to / sent to Twilio
"""
from xml.sax.saxutils import escape, quoteattr

EMPTY_RESPONSE = "<Response></Response>"

VOICE_DROP_OUTRO = "Press 1 to speak with us now or simply reply to this number by text. Thank you!"


def voice_drop(speech_text: str, keypress_callback_url: str, voice: str) -> str:
    """Message, pause, outro, then wait five seconds for a single digit."""
    voice_attr = quoteattr(voice)
    return (
        "<Response>"
        f"<Say voice={voice_attr}>{escape(speech_text)}</Say>"
        '<Pause length="1"/>'
        f"<Say voice={voice_attr}>{VOICE_DROP_OUTRO}</Say>"
        f'<Gather numDigits="1" action={quoteattr(keypress_callback_url)}>'
        '<Pause length="5"/>'
        "</Gather>"
        "</Response>"
    )


def keypress(digit: str, forward_phone: str, voice: str) -> str:
    """Press 1 connects to the forwarding line; anything else hangs up."""
    voice_attr = quoteattr(voice)
    if digit == "1" and forward_phone:
        return (
            "<Response>"
            f"<Say voice={voice_attr}>Please hold while we connect you.</Say>"
            f"<Dial>{escape(forward_phone)}</Dial>"
            "</Response>"
        )
    return (
        "<Response>"
        f"<Say voice={voice_attr}>Thank you! Feel free to reply by text anytime.</Say>"
        "<Hangup/>"
        "</Response>"
    )
