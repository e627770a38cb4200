from market_provisioner.cli import provision_main

raise SystemExit(provision_main())
