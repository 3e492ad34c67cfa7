from pace_bar.app import main

main()
