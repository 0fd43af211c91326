from chaosflame.cli import main

main()
