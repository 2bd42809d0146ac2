from sol_batch.cli import main

raise SystemExit(main())
