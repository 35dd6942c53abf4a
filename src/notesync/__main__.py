from notesync.main import main

main()
