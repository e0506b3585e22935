import sys

from promptcascade.cli import main

sys.exit(main())
