from routegen.app import main

main()
