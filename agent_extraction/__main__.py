import sys

from agent_extraction.main import main

sys.exit(main())
