import sys

from portfolio_report.cli import main

sys.exit(main())
