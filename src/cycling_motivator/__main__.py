from cycling_motivator.cli import main

main()
