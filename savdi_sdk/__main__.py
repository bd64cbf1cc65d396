import sys

from savdi_sdk.cli import main

sys.exit(main())
