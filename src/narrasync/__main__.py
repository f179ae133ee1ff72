from narrasync.cli.main import _main

_main()
