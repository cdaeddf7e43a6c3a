from hyperwatch.main import main

main()
