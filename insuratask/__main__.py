from insuratask.server import main

main()
