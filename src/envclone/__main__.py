from envclone.cli.app import main

main()
