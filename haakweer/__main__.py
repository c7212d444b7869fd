import sys

from haakweer.cli import main

sys.exit(main())
