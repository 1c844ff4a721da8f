import sys

from runesync.main import main

sys.exit(main())
