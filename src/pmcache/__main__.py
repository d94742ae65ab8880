from pmcache.cli import main

main()
