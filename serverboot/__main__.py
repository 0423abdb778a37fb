import sys

from serverboot.main import main

sys.exit(main())
