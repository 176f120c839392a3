from docindex_server.app import main


main()
