"""Allow running WebPilot as: python -m webpilot"""

from webpilot.main import run

run()
