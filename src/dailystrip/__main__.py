import sys

from dailystrip.app import main

sys.exit(main())
