import sys

from avdusage.app import main

sys.exit(main())
