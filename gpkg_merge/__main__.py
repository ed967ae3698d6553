from gpkg_merge import cli

raise SystemExit(cli.main())
