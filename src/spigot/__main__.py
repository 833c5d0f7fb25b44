from spigot.main import main

main()
