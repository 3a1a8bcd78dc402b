import sys

from image_migrator.cli import main

sys.exit(main())
