import sys

from hkz2m.main import main

sys.exit(main())
