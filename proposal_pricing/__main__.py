"""Allow running as: python -m proposal_pricing"""

from proposal_pricing.main import run, serve
import sys

if __name__ == "__main__":
    if "--serve" in sys.argv:
        serve()
    else:
        run(sys.argv[1:] or None)
