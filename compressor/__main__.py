import sys

from compressor.main import main

sys.exit(main())
