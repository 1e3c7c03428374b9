import sys

from discoagent.app import main

sys.exit(main())
