from idiamant2mqtt._cli import main

main()
