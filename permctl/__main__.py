import sys

from permctl.main import main

sys.exit(main())
