from postvault.cli import main

raise SystemExit(main())
