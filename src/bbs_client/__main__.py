from bbs_client.tui_app import main

raise SystemExit(main())
