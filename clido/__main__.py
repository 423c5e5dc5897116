from clido.cli import main

main()
