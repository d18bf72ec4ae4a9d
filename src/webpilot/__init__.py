"""
WebPilot — autonomous browser agent.

An LLM proposes one browser action at a time; the control loop parses it,
guards against false completion, asks the human before destructive steps,
executes it with Playwright and retries failures with a bounded backoff.
"""

__version__ = "1.0.0"
